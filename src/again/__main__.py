"""again 入口点。

支持: python -m again
"""

from .app import main

if __name__ == "__main__":
    main()
