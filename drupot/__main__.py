import sys

from drupot.sensor import main

sys.exit(main())
