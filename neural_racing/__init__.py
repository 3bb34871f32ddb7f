from .errors import ConfigurationError, EpisodeStateError
from .network import Network, NetworkStructure
from .simulation import EpisodeRunner, EpisodeState
from .simulator import Simulator
from .track import Track, load_track_csv
