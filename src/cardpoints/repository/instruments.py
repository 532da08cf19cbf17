import json
from pathlib import Path

from cardpoints.domain.errors import InstrumentNotFoundError
from cardpoints.domain.models import Instrument


class InstrumentRegistry:
    def __init__(self, instruments: list[Instrument] | None = None):
        self._instruments: dict[str, Instrument] = {item.id: item for item in instruments or []}

    @classmethod
    def from_file(cls, instruments_file: str) -> "InstrumentRegistry":
        path = Path(instruments_file)
        if not path.exists():
            return cls()

        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)

        return cls([Instrument.model_validate(item) for item in data])

    def add(self, instrument: Instrument) -> None:
        self._instruments[instrument.id] = instrument

    def get(self, instrument_id: str) -> Instrument:
        instrument = self._instruments.get(instrument_id)
        if instrument is None:
            raise InstrumentNotFoundError(instrument_id)
        return instrument

    def all(self) -> list[Instrument]:
        return list(self._instruments.values())
