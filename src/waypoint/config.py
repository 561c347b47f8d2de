"""Router configuration.

RouterConfig holds the knobs a router is built with; FutureConfig holds
the opt-in behavior flags. Both are frozen once constructed.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class FutureConfig:
    """Opt-in behavior changes.

    All flags default to ``False``::

        future = FutureConfig(v7_relative_splat_path=True)
    """

    # Resolve relative paths inside splat routes against the full splat pathname
    v7_relative_splat_path: bool = False

    # Run loaders missing from hydration data instead of trusting the payload wholesale
    v7_partial_hydration: bool = False

    # Skip loader revalidation after an action returns a 4xx/5xx error
    v7_skip_action_error_revalidation: bool = False


@dataclass(frozen=True, slots=True)
class RouterConfig:
    """Router configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = RouterConfig(basename="/app", max_redirects=5)
    """

    # URL prefix every location must start with
    basename: str = "/"

    # Redirect hops followed by one navigation before giving up
    max_redirects: int = 20

    # Log a warning when a location matches no route
    warn_on_unmatched: bool = True

    # Development warnings (leaf routes without content, lazy overrides, ...)
    dev_warnings: bool = True

    future: FutureConfig = field(default_factory=FutureConfig)
