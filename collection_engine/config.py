from dataclasses import dataclass

PERSISTENCE_MODES: tuple[str, ...] = ("memory", "file", "sqlite")
DEFAULT_PERSISTENCE_PATHS: dict[str, str] = {
    "file": ".collection-data.json",
    "sqlite": ".collection-data.db",
}


@dataclass(frozen=True)
class EngineConfig:
    log_level: str = "INFO"
    seed: int | None = None  # set for repeatable FK distribution
    default_seed_count: int = 10
    default_page_limit: int = 20
    persistence_mode: str = "memory"  # "memory" | "file" | "sqlite"
    persistence_path: str | None = None  # None picks the mode's default file
    shuffle_fk_pools: bool = True

    def resolved_persistence_path(self) -> str | None:
        if self.persistence_path:
            return self.persistence_path
        return DEFAULT_PERSISTENCE_PATHS.get(self.persistence_mode)
