from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


class BatchAccumulator:
    """
    Buffers parsed rows into fixed-size batches.

    add() hands back a full batch as soon as capacity is reached and starts a
    fresh one; drain() hands back whatever is left at end of stream.
    """

    def __init__(self, capacity: int = 500):
        if capacity < 1:
            raise ValueError("Batch capacity must be at least 1")
        self.capacity = capacity
        self._rows: List[Row] = []

    def __len__(self) -> int:
        return len(self._rows)

    def add(self, row: Row) -> Optional[List[Row]]:
        self._rows.append(row)
        if len(self._rows) >= self.capacity:
            return self._take()
        return None

    def drain(self) -> Optional[List[Row]]:
        if not self._rows:
            return None
        return self._take()

    def _take(self) -> List[Row]:
        batch, self._rows = self._rows, []
        return batch


def effective_batch_capacity(configured: int, column_count: int, max_bind_parameters: int) -> int:
    """
    Largest batch size that keeps one INSERT under the driver's bind-parameter ceiling.

    Never exceeds the configured capacity.
    """
    if column_count <= 0:
        return configured
    return max(1, min(configured, max_bind_parameters // column_count))
