import sys

from framecast.main import main


sys.exit(main())
