"""
macstrap Test Suite

- Unit tests for the prompt matcher, redaction, settings and models
- Terminal tests that drive scripted child processes through a real pty
- Driver tests covering the full run lifecycle and cleanup guarantees
"""
