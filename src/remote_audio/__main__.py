"""Allow running the client with ``python -m remote_audio``."""

from remote_audio.client import main

main()
