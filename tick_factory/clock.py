"""Fixed-timestep clock."""


class Clock:
    def __init__(self, tps: int) -> None:
        if tps <= 0:
            raise ValueError("tps must be positive")
        self._tps = tps
        self._dt = 1.0 / tps
        self._tick_number = 0

    @property
    def tps(self) -> int:
        return self._tps

    @property
    def dt(self) -> float:
        return self._dt

    @property
    def tick_number(self) -> int:
        return self._tick_number

    @property
    def elapsed(self) -> float:
        return self._tick_number * self._dt

    def advance(self) -> int:
        self._tick_number += 1
        return self._tick_number

    def set_tps(self, tps: int) -> None:
        if tps <= 0:
            raise ValueError("tps must be positive")
        self._tps = tps
        self._dt = 1.0 / tps

    def reset(self, tick_number: int = 0) -> None:
        if tick_number < 0:
            raise ValueError(f"tick_number must be >= 0, got {tick_number}")
        self._tick_number = tick_number
