from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    prefix: str = Field(default="~/.machine-setup")
    state_filename: str = Field(default="state.json")
    history_db_filename: str = Field(default="history.db")
    log_path: str | None = Field(default=None)
    log_level: str = Field(default="INFO")
    continue_on_error: bool = Field(default=False)
    reapply_hint: str = Field(default="machine-setup run --only {step_id} PLAN")

    class Config:
        env_prefix = "MACHINE_SETUP_"
        env_file = ".env"

    def prefix_dir(self) -> Path:
        return Path(self.prefix).expanduser()

    def state_path(self) -> Path:
        return self.prefix_dir() / self.state_filename

    def history_db_path(self) -> Path:
        return self.prefix_dir() / self.history_db_filename

    def resolved_log_path(self) -> Path:
        if self.log_path:
            return Path(self.log_path).expanduser()
        return self.prefix_dir() / "setup.log"


settings = Settings()

__all__ = ["Settings", "settings"]
