from pydantic_settings import BaseSettings


class ShipEngineSettings(BaseSettings):
    """
    ShipEngine label provider settings.
    Loaded from .env with prefix SHIPENGINE_*
    """

    enabled: bool = True
    api_key: str = ""
    sandbox_api_key: str = ""
    use_sandbox: bool = True
    base_url: str = "https://api.shipengine.com"
    default_carrier_id: str = ""
    default_service_code: str = "usps_priority_mail"
    label_format: str = "pdf"
    request_timeout_seconds: float = 30.0

    # Ship-from address
    from_name: str = ""
    from_company: str = ""
    from_street1: str = ""
    from_street2: str = ""
    from_city: str = ""
    from_state: str = ""
    from_postal_code: str = ""
    from_country: str = "US"
    from_phone: str = ""

    @property
    def effective_api_key(self) -> str:
        return self.sandbox_api_key if self.use_sandbox else self.api_key

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "SHIPENGINE_",
        "extra": "ignore",
        "frozen": True,
    }
