import sys

from packet_resolver.main import main

sys.exit(main())
