import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "wizard_backend.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        # Exclude the SQLite job database from the reload watcher
        reload_excludes=["*.db", "*.db-journal"],
    )
