import sys

from .service_runner import main

if __name__ == "__main__":
    sys.exit(main())
