#!/usr/bin/env python3
"""
Simple script to run the face identity backend server
"""
import os
import sys


def main():
    """Run the FastAPI server"""
    try:
        import uvicorn
        from backend.main import app
    except ImportError as e:
        print("❌ Error: Missing required packages. Please install dependencies first:")
        print("   pip install -e '.[embedder]'")
        print(f"\n   Error details: {e}")
        sys.exit(1)

    port = int(os.getenv("PORT", "3001"))

    print("🔥 Starting Face Identity Backend Server...")
    print(f"📍 Server will be available at: http://localhost:{port}")
    print(f"📖 API Documentation: http://localhost:{port}/docs")
    print("🔧 Endpoints Available:")
    print("▶ POST   /api/register-face")
    print("▶ POST   /api/recognize-face")
    print("▶ POST   /api/register-photo (form-data with photo, name)")
    print("▶ POST   /api/recognize-photo (form-data with photo)")
    print("▶ POST   /api/analyze-face (form-data with photo)")
    print("▶ POST   /api/upload-photo (optional)")
    print("▶ GET    /api/faces, DELETE /api/faces/{name}")
    print("▶ GET    /api/data, /api/face/stats, /health")
    print("\n💡 Press Ctrl+C to stop the server\n")

    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
