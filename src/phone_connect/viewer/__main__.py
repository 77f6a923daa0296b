import sys

from phone_connect.viewer.agent import main

sys.exit(main())
