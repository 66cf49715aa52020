"""idlcli constants and defaults."""

ACCOUNT_ID_SIZE = 32
PROGRAM_ID_WORDS = 8
VEC_ELEMENT_SIZE = 32

U32_MAX = 2**32 - 1

DEFAULT_IDL_VERSION = "0.1.0"
DEFAULT_SEQUENCER_URL = "http://127.0.0.1:3040"
DEFAULT_TIMEOUT = 30.0
DEFAULT_PROGRAM_ID_TOOL = "nssa-program-id"
DEFAULT_CONFIG_NAME = "idlcli.toml"

# Confirmation polling (reads only, never resubmits).
CONFIRM_ATTEMPTS = 10
CONFIRM_INTERVAL = 2.0

ENV_CONFIG = "IDLCLI_CONFIG"
ENV_SEQUENCER_URL = "NSSA_SEQUENCER_URL"
ENV_WALLET_HOME = "NSSA_WALLET_HOME_DIR"
ENV_TIMEOUT = "IDLCLI_TIMEOUT"
ENV_PROGRAM_ID_TOOL = "IDLCLI_PROGRAM_ID_TOOL"

# Domain prefix of the ledger's program-derived AccountId scheme.
PDA_PREFIX = b"/NSSA/v0.2/AccountId/PDA/".ljust(32, b"\x00")

OPTION_NONE_TOKEN = "none"

TYPE_FORMATS = (
    ("u128, u64, u32, u8", "Decimal number"),
    ("[u8; N]", "Hex string (2*N hex chars) or UTF-8 string (<=N bytes, right-padded)"),
    ("[u32; 8] / program_id", 'Comma-separated u32s: "0,0,0,0,0,0,0,0"'),
    ("Vec<[u8; 32]>", 'Comma-separated hex (64 chars) or base58: "aabb...00,ccdd...00"'),
    ("Option<T>", '"none" or a value of T'),
)
