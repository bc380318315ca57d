from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class ContainerConfig(BaseModel):
    """
    Where the tile container lives and which chunks rebuild it.

    Chunks are either listed explicitly (`chunks`, declared order is
    concatenation order) or matched by `chunkPattern` (sorted by name). With
    neither, the container must already exist.
    """

    path: str
    chunkDir: str = "."
    chunks: list[str] = Field(default_factory=list)
    chunkPattern: str | None = None
    requiredChunks: list[str] = Field(default_factory=list)
    # Fallback when the container metadata has no `vector_layers`.
    defaultSourceLayer: str = "parishes"

    @model_validator(mode="after")
    def _chunks_xor_pattern(self) -> "ContainerConfig":
        if self.chunks and self.chunkPattern:
            raise ValueError("Use either `chunks` or `chunkPattern`, not both")
        unknown = set(self.requiredChunks) - set(self.chunks)
        if self.chunks and unknown:
            raise ValueError(f"`requiredChunks` not listed in `chunks`: {sorted(unknown)}")
        return self

    @property
    def has_chunks(self) -> bool:
        return bool(self.chunks or self.chunkPattern)


class FeatureSource(BaseModel):
    path: str
    required: bool = False


class FeaturesConfig(BaseModel):
    sources: list[FeatureSource] = Field(min_length=1)


class QueryConfig(BaseModel):
    defaultLimit: int = Field(default=100, ge=1)
    maxLimit: int = Field(default=1000, ge=1)
    filterWindow: int = Field(default=1000, ge=1)


class DatasetConfig(BaseModel):
    id: str
    title: str
    enabled: bool = True
    container: ContainerConfig
    features: FeaturesConfig
    query: QueryConfig = Field(default_factory=QueryConfig)
    # Optional directory served at `/` for the map front-end.
    staticDir: str | None = None
