import re
from datetime import timedelta


class TimeParser:
    def __init__(self, time_amount: str) -> None:
        self._units = {
            "ms": "milliseconds",
            "s": "seconds",
            "m": "minutes",
            "h": "hours",
            "d": "days",
        }

        self.time = float(
            timedelta(
                **{
                    self._units.get(
                        m.group("unit").lower(),
                        "seconds",
                    ): float(
                        m.group("val")
                    )
                    for m in re.finditer(
                        r"(?P<val>\d+(\.\d+)?)(?P<unit>ms|[smhd]?)",
                        time_amount,
                        flags=re.I,
                    )
                }
            ).total_seconds()
        )
