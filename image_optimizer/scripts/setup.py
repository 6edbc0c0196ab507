# scripts/setup.py
"""Setup script to initialize the application."""

from pathlib import Path

from image_optimizer.config import get_settings

ENV_TEMPLATE = """# Server
HOST=0.0.0.0
PORT=3000

# Storage
UPLOAD_DIR=./uploads
PUBLIC_URL=/uploads
PUBLIC_DIR=./public

# Processing
MAX_FILE_SIZE_MB=40
DEFAULT_QUALITY=80
DEFAULT_FORMAT=webp

# Debug
DEBUG=False
LOG_LEVEL=INFO
"""


def create_directories():
    """Create necessary directories."""
    settings = get_settings()

    directories = [
        settings.UPLOAD_DIR,
        settings.PUBLIC_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)
        print(f"✓ Created: {directory}")


def check_env_file(env_path: Path = Path(".env")) -> bool:
    """Check if .env file exists."""
    if not env_path.exists():
        print("❌ .env file not found!")
        print("Creating template .env file...")
        env_path.write_text(ENV_TEMPLATE)
        print("✓ Created .env template. Review the values before starting.")
        return False

    print("✓ .env file configured")
    return True


def main():
    print("=" * 50)
    print("Image Optimizer API - Setup")
    print("=" * 50)

    env_ok = check_env_file()
    create_directories()

    print("\n" + "=" * 50)
    if env_ok:
        print("✓ Setup complete! Ready to run.")
        print("Start server: uvicorn image_optimizer.main:app --reload")
    else:
        print("⚠️  Setup incomplete. Please review the .env file.")
    print("=" * 50)


if __name__ == "__main__":
    main()
