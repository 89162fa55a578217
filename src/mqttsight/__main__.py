"""Allow `python -m mqttsight`."""

import sys

from mqttsight.main import main

sys.exit(main())
