from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    whoop_api_hostname: str = "https://api.prod.whoop.com"
    client_id: str = ""
    client_secret: str = ""
    callback_url: str = "http://localhost:3000/auth/callback"
    scopes: str = "offline read:recovery read:sleep read:cycles read:body_measurement"
    scope_separator: str = " "  # WHOOP expects space-joined scopes
    request_timeout_seconds: float = 10.0
    token_safety_margin_seconds: int = 30
    state_ttl_seconds: int = 600
    enforce_scopes: bool = True
    database_url: str = ""  # empty: in-memory session store
    session_cookie_name: str = "whoopdash_session"
    session_cookie_secure: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def scope_list(self) -> Tuple[str, ...]:
        return tuple(s for s in self.scopes.replace(",", " ").split() if s)


@dataclass(frozen=True)
class ProviderConfig:
    """Everything the OAuth coordinator needs to talk to one provider."""

    authorization_url: str
    token_url: str
    api_base_url: str
    client_id: str
    client_secret: str
    redirect_url: str
    scopes: Tuple[str, ...]
    scope_separator: str = " "

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderConfig":
        host = settings.whoop_api_hostname.rstrip("/")
        return cls(
            authorization_url=f"{host}/oauth/oauth2/auth",
            token_url=f"{host}/oauth/oauth2/token",
            api_base_url=f"{host}/developer/v1",
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_url=settings.callback_url,
            scopes=settings.scope_list,
            scope_separator=settings.scope_separator,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
