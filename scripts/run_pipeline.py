"""
Train the pH network on the electrolyte dataset and write the Training/Test result tables.
"""
import os
import sys

# Add parent directory to path to import electrolyte_nn
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from electrolyte_nn.pipeline import main

if __name__ == "__main__":
    sys.exit(main())
