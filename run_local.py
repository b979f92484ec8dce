# run_local.py  (project root, next to the framecast/ package)
from framecast.server import run

if __name__ == "__main__":
    run()
