from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Tutor Scheduling Core'
    app_env: str = 'local'
    app_timezone: str = 'Asia/Ho_Chi_Minh'
    database_url: str = 'sqlite:///./scheduling.db'
    reschedule_cutoff_hours: int = 4
    default_search_radius_km: float = 10.0
    wallet_mode: str = 'embedded'
    wallet_service_url: str = 'http://127.0.0.1:8100'
    profile_mode: str = 'embedded'
    profile_service_url: str = 'http://127.0.0.1:8200'
    collaborator_timeout_seconds: float = 10.0
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()
