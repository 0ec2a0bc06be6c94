"""Allow ``python -m plansearch.cli`` execution."""

from plansearch.cli.documents import main

main()
