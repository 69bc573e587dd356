import os
from dotenv import load_dotenv

# always load from local file
load_dotenv(".env")

# -------- env / config --------
NODE_URL             = os.getenv("NODE_URL")
DB_PATH              = os.getenv("DB_PATH", "coin_index.sqlite")
STARTING_VERSION     = int(os.getenv("STARTING_VERSION", "0"))
BATCH_SIZE           = int(os.getenv("BATCH_SIZE", "500"))
PROCESSOR_TASKS      = int(os.getenv("PROCESSOR_TASKS", "4"))
POLL_INTERVAL_S      = float(os.getenv("POLL_INTERVAL_S", "1.0"))
# SQLITE_MAX_VARIABLE_NUMBER for sqlite >= 3.32
MAX_QUERY_PARAMETERS = int(os.getenv("MAX_QUERY_PARAMETERS", "32766"))

# --- name service (ANS) emitter ---
ANS_CONTRACT_ADDRESS = os.getenv(
    "ANS_CONTRACT_ADDRESS",
    "0xdbf606fea404cb26efe68d00f8f4fff8e4b9ce69f903818f8acf81473a32430a",
)

# --- column limits ---
COIN_TYPE_MAX_LEN      = 256
COIN_NAME_MAX_LEN      = 32
COIN_SYMBOL_MAX_LEN    = 10
ENTRY_FUNCTION_MAX_LEN = 100

# --- framework coin ---
APTOS_COIN_TYPE          = "0x1::aptos_coin::AptosCoin"
GAS_FEE_EVENT_TYPE       = "0x1::aptos_coin::GasFeeEvent"
# no real event handle uses a negative creation number
GAS_FEE_CREATION_NUMBER  = -1
