from __future__ import annotations

HEADER_FORMAT = "!BBHIIQ"  # version, message_class, entity_class, length, seq, element_id
TLV_HEADER_FORMAT = "!HH"  # type, value length
VERSION = 1

TLV_PERIODICITY_MS = 0x0001
TLV_CELL = 0x0002

PERIODICITY_FORMAT = "!I"
CELL_FORMAT = "!HBII"  # pci, n_prb, dl_earfcn, ul_earfcn

MAX_MESSAGE_SIZE = 64 * 1024
MAX_SEQUENCE = 0xFFFFFFFF

DEFAULT_CONTROLLER_ADDR = "127.0.0.1"
DEFAULT_CONTROLLER_PORT = 2210
DEFAULT_DELAY_MS = 1500
DEFAULT_PCI = 1
DEFAULT_N_PRB = 25
DEFAULT_DL_EARFCN = 3350
DEFAULT_UL_EARFCN = 21350
DEFAULT_ENB_ID = 0x19B
