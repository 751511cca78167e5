class StaleResponse(RuntimeError):
    """A collaborator response arrived for a dataset that is no longer active."""


class DatasetEpoch:
    """
    Generation counter for the active dataset.

    Every in-flight request captures `current` at launch; loading another dataset
    advances the counter, so late responses can be recognised and discarded.
    """

    def __init__(self):
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def advance(self) -> int:
        self._value += 1
        return self._value

    def is_current(self, tag: int) -> bool:
        return tag == self._value

    def ensure_current(self, tag: int, operation: str) -> None:
        if not self.is_current(tag):
            raise StaleResponse(f"{operation} response for epoch {tag} arrived at epoch {self._value}")

    async def settle(self, tag: int, operation: str, awaitable):
        """Awaits a request launched at epoch `tag`; any outcome arriving late becomes StaleResponse."""
        try:
            result = await awaitable
        except Exception as err:
            if not self.is_current(tag):
                raise StaleResponse(f"{operation} failure for epoch {tag} arrived at epoch {self._value}") from err
            raise
        self.ensure_current(tag, operation)
        return result
