import sys

from statemiles.cli import main

sys.exit(main())
