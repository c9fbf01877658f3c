"""Run the helm-reconciler command line tool with `python -m helm_reconciler`."""

from helm_reconciler.tool.helm_reconciler import main

if __name__ == "__main__":
    main()
