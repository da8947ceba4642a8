"""Index and search configuration models.

Index configuration selects one engine from a closed set of algorithms and
carries its build-time tuning. Search configuration carries query-time tuning
and is independent of the engine that answers the query.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from neighbors.core.config import settings
from neighbors.domain import InvalidConfigurationError

# Sentinel for "visit every candidate"
CHECKS_UNLIMITED = -1

# Type alias for supported index algorithms
IndexAlgo = Literal[
    "linear", "kdtree", "kdtree_single", "kmeans", "hierarchical", "composite"
]


class BaseIndexParams(BaseModel):
    """Common base for index configuration models."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class LinearIndexParams(BaseIndexParams):
    """Exhaustive scan; always exact."""

    algorithm: Literal["linear"] = "linear"


class KDTreeIndexParams(BaseIndexParams):
    """Forest of randomized kd-trees searched together."""

    algorithm: Literal["kdtree"] = "kdtree"
    trees: int = Field(4, ge=1, le=64, description="Number of randomized trees")
    random_seed: int = Field(0, ge=0, description="Seed for split dimension choice")


class KDTreeSingleIndexParams(BaseIndexParams):
    """Single kd-tree with exact search."""

    algorithm: Literal["kdtree_single"] = "kdtree_single"
    leaf_max_size: int = Field(10, ge=1, description="Maximum points per leaf")


class KMeansIndexParams(BaseIndexParams):
    """Hierarchical k-means tree."""

    algorithm: Literal["kmeans"] = "kmeans"
    branching: int = Field(32, ge=2, description="Clusters per tree node")
    iterations: int = Field(
        11, ge=-1, description="K-means iterations per node (-1 until convergence)"
    )
    centers_init: Literal["random", "kmeanspp"] = "random"
    cb_index: float = Field(0.2, ge=0.0, description="Cluster boundary index")
    random_seed: int = Field(0, ge=0)

    @field_validator("iterations")
    @classmethod
    def validate_iterations(cls, v: int) -> int:
        if v == 0:
            raise ValueError("iterations must be positive or -1")
        return v


class HierarchicalClusteringIndexParams(BaseIndexParams):
    """Trees of clusters around randomly chosen pivot elements."""

    algorithm: Literal["hierarchical"] = "hierarchical"
    branching: int = Field(32, ge=2, description="Pivots per tree node")
    trees: int = Field(4, ge=1, le=64, description="Number of parallel trees")
    leaf_max_size: int = Field(100, ge=1, description="Maximum points per leaf")
    centers_init: Literal["random", "gonzales"] = "random"
    random_seed: int = Field(0, ge=0)


class CompositeIndexParams(BaseIndexParams):
    """Randomized kd-trees combined with a hierarchical k-means tree."""

    algorithm: Literal["composite"] = "composite"
    trees: int = Field(4, ge=1, le=64)
    branching: int = Field(32, ge=2)
    iterations: int = Field(11, ge=-1)
    centers_init: Literal["random", "kmeanspp"] = "random"
    cb_index: float = Field(0.2, ge=0.0)
    random_seed: int = Field(0, ge=0)

    @field_validator("iterations")
    @classmethod
    def validate_iterations(cls, v: int) -> int:
        if v == 0:
            raise ValueError("iterations must be positive or -1")
        return v

    def kdtree_params(self) -> KDTreeIndexParams:
        """Configuration of the kd-tree half."""
        return KDTreeIndexParams(trees=self.trees, random_seed=self.random_seed)

    def kmeans_params(self) -> KMeansIndexParams:
        """Configuration of the k-means half."""
        return KMeansIndexParams(
            branching=self.branching,
            iterations=self.iterations,
            centers_init=self.centers_init,
            cb_index=self.cb_index,
            random_seed=self.random_seed,
        )


IndexParams = Annotated[
    Union[
        LinearIndexParams,
        KDTreeIndexParams,
        KDTreeSingleIndexParams,
        KMeansIndexParams,
        HierarchicalClusteringIndexParams,
        CompositeIndexParams,
    ],
    Field(discriminator="algorithm"),
]

_INDEX_PARAMS_ADAPTER: TypeAdapter[IndexParams] = TypeAdapter(IndexParams)


def parse_index_params(value: BaseIndexParams | Mapping[str, Any] | str | None = None) -> IndexParams:
    """Normalize an index configuration, raising InvalidConfigurationError if invalid."""
    if isinstance(value, BaseIndexParams):
        return value

    if value is None:
        value = settings.default_index_type

    if isinstance(value, str):
        value = {"algorithm": value.lower().strip()}

    if not isinstance(value, Mapping):
        raise InvalidConfigurationError(
            "<unknown>", f"unsupported configuration type {type(value).__name__}"
        )

    algorithm = str(value.get("algorithm", "<missing>"))
    try:
        return _INDEX_PARAMS_ADAPTER.validate_python(dict(value))
    except ValidationError as e:
        reasons = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise InvalidConfigurationError(algorithm, reasons) from e


class SearchParams(BaseModel):
    """Query-time tuning shared by all engines."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    checks: int = Field(
        default_factory=lambda: settings.default_checks,
        ge=CHECKS_UNLIMITED,
        description="Candidates to visit before stopping (-1 for unlimited)",
    )
    eps: float = Field(
        default_factory=lambda: settings.default_eps,
        ge=0.0,
        description="Approximation tolerance used when pruning branches",
    )
    sorted: bool = Field(
        default_factory=lambda: settings.default_sorted,
        description="Return results ordered by distance",
    )

    @field_validator("checks")
    @classmethod
    def validate_checks(cls, v: int) -> int:
        if v == 0:
            raise ValueError("checks must be positive or -1 for unlimited")
        return v

    @property
    def unlimited(self) -> bool:
        """True if the search visits every candidate it cannot prune."""
        return self.checks == CHECKS_UNLIMITED

    @classmethod
    def exhaustive(cls) -> "SearchParams":
        """Configuration yielding an exact, sorted, full search."""
        return cls(checks=CHECKS_UNLIMITED, eps=0.0, sorted=True)
