from .pinger import Pinger, Config, Packet, EngineState, resolve_address, \
    AddressResolutionError, EngineStateError

from .kernel import Kernel, EventQueue, TerminationSignal, ExitReason, \
    ExecutionStats

from .stats import Accumulator, Statistics
from .sender import Sender, SendError
from .receiver import Receiver, ReceivedPacket
from .connection import PacketConn, open_packet_conn, ConnectionOpenError
from .logger import ProbeLogger, ProbeLoggerConfig, PROBE_LOGGER_FORMAT
