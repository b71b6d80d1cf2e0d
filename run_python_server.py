#!/usr/bin/env python3
"""
Standalone script to run the recommendations FastAPI backend
"""
import sys
from pathlib import Path

# Add current directory to Python path
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

if __name__ == "__main__":
    import uvicorn
    import settings

    reload = settings.NODE_ENV == "development"

    print(f"🚀 Starting FastAPI server on {settings.HOST}:{settings.PORT}")
    print(f"📊 Environment: {settings.NODE_ENV}")
    print(f"🔄 Auto-reload: {reload}")
    print(f"📖 API Documentation: http://{settings.HOST}:{settings.PORT}/api/docs")

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=reload,
        log_level="info" if not reload else "debug"
    )
