import sys

from aiproxy.main import main

sys.exit(main())
