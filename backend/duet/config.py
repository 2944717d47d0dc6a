from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Reject a second connection from an address already present in the room.
    origin_dedup: bool = False
    # Tell the remaining occupant the call is over when their partner leaves.
    implicit_call_end: bool = True
    max_message_length: int = 4000
    max_display_name_length: int = 64
    max_frame_bytes: int = 64 * 1024
    trust_forwarded_for: bool = False
    room_id_bytes: int = 6
    stun_servers: str = "stun:stun.l.google.com:19302"
    turn_uri: str | None = None
    turn_username: str | None = None
    turn_password: str | None = None
    cors_origins: str = "*"
    static_dir: str | None = None
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000


settings = Settings()
