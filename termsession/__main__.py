"""
Run the termsession CLI: python -m termsession
"""

from .cli import main

if __name__ == "__main__":
    main()
