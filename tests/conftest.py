import os
import sys

# add source path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
