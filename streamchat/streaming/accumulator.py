"""Text accumulated for one streaming session."""


class Accumulator:
    """Growing answer buffer plus the watermark already delivered to the UI.

    Appends are O(1) amortized: parts are collected in a list and joined only
    when the text is read.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._length = 0
        self._committed = 0

    def __len__(self) -> int:
        return self._length

    @property
    def text(self) -> str:
        """All text appended so far."""
        if len(self._parts) > 1:
            self._parts = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""

    @property
    def committed(self) -> int:
        """Length of the prefix already handed to the sink."""
        return self._committed

    @property
    def committed_text(self) -> str:
        return self.text[: self._committed]

    def append(self, text: str) -> None:
        if text:
            self._parts.append(text)
            self._length += len(text)

    def commit(self, up_to: int) -> int:
        """Advance the committed watermark.

        Args:
            up_to: New committed length; clamped to the accumulated length.

        Returns:
            The committed length after the call.

        Raises:
            ValueError: If the watermark would move backward.
        """
        target = min(up_to, self._length)
        if target < self._committed:
            raise ValueError(f"Cannot move committed length backward ({self._committed} -> {target})")
        self._committed = target
        return self._committed

    def pending(self) -> str:
        """Accumulated text not committed yet."""
        return self.text[self._committed :]

    def pending_length(self) -> int:
        return self._length - self._committed
