class CardPointsError(Exception):
    pass


class ValidationError(CardPointsError, ValueError):
    pass


class RuleNotFoundError(CardPointsError, LookupError):
    def __init__(self, rule_id: str):
        super().__init__(f"Reward rule not found: {rule_id}")
        self.rule_id = rule_id


class InstrumentNotFoundError(CardPointsError, LookupError):
    def __init__(self, instrument_id: str):
        super().__init__(f"Instrument not found: {instrument_id}")
        self.instrument_id = instrument_id
