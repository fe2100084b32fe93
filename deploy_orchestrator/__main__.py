import sys

from deploy_orchestrator.cli import main

raise SystemExit(main(sys.argv[1:]))
