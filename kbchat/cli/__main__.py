"""Allow ``python -m kbchat.cli`` execution."""

from kbchat.cli.ingest import main

main()
