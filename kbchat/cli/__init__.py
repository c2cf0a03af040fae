"""Command-line tools for kbchat.

- ``python -m kbchat.cli`` / ``python -m kbchat.cli.ingest`` -- ingest
  markdown and text files into the knowledge base, list indexed documents,
  and print index statistics without going through the HTTP API.
"""
