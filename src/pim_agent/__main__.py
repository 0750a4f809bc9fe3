import sys

from pim_agent.cli import main

sys.exit(main())
