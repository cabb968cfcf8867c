from pydantic import BaseModel, ValidationError, PositiveFloat, PositiveInt

class SettingsSchema(BaseModel):
    app_name: str = "Sport Tracker Pro"
    default_body_weight: PositiveFloat = 70.0
    met_low: PositiveFloat = 4.0
    met_medium: PositiveFloat = 7.0
    met_high: PositiveFloat = 10.0
    calories_per_set: PositiveFloat = 5.0
    token_ttl_days: PositiveInt = 30
    min_password_length: PositiveInt = 6
    default_stats_period: PositiveInt = 30

def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
