from pathlib import Path

import deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(deployment.__file__).parent
PROJECT_ROOT = DEPLOYMENT_DIR.parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"
DOTENV_FILEPATH = PROJECT_ROOT / ".env"

#
# Networks
#

LOCAL_NETWORKS = ["local"]

#
# Environment
#

PRIVATE_KEY_ENVVAR = "PRIVATE_KEY"
PASSPHRASE_ENVVAR = "AIR_DEPLOYER_PASSPHRASE"

DEPLOYER_ACCOUNT_ALIAS = "AIR_DEPLOYER"

#
# Contracts
#

TOKEN_CONTRACT = "Air"
VESTING_CONTRACT = "Vesting"

# name printed in deployment reports
TOKEN_DISPLAY_NAME = "3AIR"

# whole token units transferred to the vesting pool
VESTING_ALLOCATION = 830_000_000
