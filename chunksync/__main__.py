"""Allow ``python -m chunksync``."""

from chunksync import main

main()
