"""Allow `python -m teleport_autoreviewer`."""

from teleport_autoreviewer.cli import main

main()
