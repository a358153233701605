"""Allow running the task engine as a module: python -m core "<description>" [category]."""

from core.runner import main

if __name__ == "__main__":
    main()
