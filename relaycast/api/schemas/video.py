from relaycast.schemas import RelayProcessConfig, RelayStatus, StreamPathList
from relaycast.schemas.relay import CamelModel


class StartOut(RelayStatus):
    message: str


class StopOut(CamelModel):
    message: str
    server_running: bool = False


class PathsOut(CamelModel):
    paths: StreamPathList


class ConfigOut(CamelModel):
    config: RelayProcessConfig
