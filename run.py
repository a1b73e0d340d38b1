#!/usr/bin/env python3
"""
Retail Banking Backend Entry Point

Starts the FastAPI server with the retail banking services.
Host, port and database come from BANK_* environment variables.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from retail_banking.api import run_server
from retail_banking.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("🏦 Starting Retail Banking Backend...")
    print(f"💾 Database: {config.database_path}")
    print("💰 All amounts use Decimal precision")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Retail Banking Backend...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
