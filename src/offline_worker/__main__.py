import sys

from offline_worker.cli import main

sys.exit(main())
