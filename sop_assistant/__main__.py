import sys

from sop_assistant.cli import main

sys.exit(main())
