from cardpoints.domain.models import Instrument, SimulationResult


def eligible_instruments(instruments: list[Instrument]) -> list[Instrument]:
    return [item for item in instruments if item.active and not item.is_cash]


def rank_results(results: list[SimulationResult]) -> list[SimulationResult]:
    converted = [item for item in results if item.converted_value is not None]
    unknown = [item for item in results if item.converted_value is None]

    converted.sort(key=lambda item: (-item.converted_value, item.instrument.name, item.instrument.id))

    ranked = converted + unknown
    for position, item in enumerate(ranked, start=1):
        item.rank = position
    return ranked
