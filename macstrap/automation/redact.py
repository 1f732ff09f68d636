"""Keep the administrator password out of forwarded output."""

MASK = "********"


class SecretRedactor:
    """Mask every occurrence of a secret in a stream of text chunks.

    The terminal echoes what is typed unless the reading program turns echo
    off, so the password can come straight back in the output, possibly split
    across reads. After ``arm`` (the password was just typed), a trailing
    fragment that could be the start of the secret is held back until the
    next chunk decides it. The echo ends at the next line break, which
    disarms the redactor again. Other output is forwarded without delay.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("secret must not be empty")
        self._secret = secret
        self._pending = ""
        self._armed = False

    def arm(self) -> None:
        """The secret was typed; its echo may follow in pieces."""
        self._armed = True

    def feed(self, text: str) -> str:
        text = (self._pending + text).replace(self._secret, MASK)
        self._pending = ""
        if not self._armed:
            return text

        hold = 0
        for size in range(min(len(text), len(self._secret) - 1), 0, -1):
            if self._secret.startswith(text[-size:]):
                hold = size
                break

        visible = text[:len(text) - hold]
        self._pending = text[len(text) - hold:]
        if "\n" in visible:
            # Whatever is held now starts a new line, not the echo
            self._armed = False
            visible, self._pending = visible + self._pending, ""
        return visible

    def flush(self) -> str:
        """End of stream. A fragment held right after the secret was typed is masked."""
        pending, self._pending = self._pending, ""
        self._armed = False
        return MASK if pending else ""
