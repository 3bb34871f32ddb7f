class ConfigurationError(ValueError):
    """Invalid track, network or simulator configuration."""


class EpisodeStateError(RuntimeError):
    """An episode operation was called in a state that does not allow it."""
