import os
import sys

# Allow `python index.py` from inside Backend/ without installing the package
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from dompet.main import app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8030)
