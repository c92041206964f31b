"""Command line interface for testing configuration loading"""
from . import settings_conf, DEFAULTS
from pathlib import Path

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        if key in ('jwt_secret', 'sms_gateway_token', 'smtp_password') and value:
            value = '********'
        print(f"{key}: {value}")

    # Save example configuration file
    example = Path("settings.conf.example")
    with open(example, "w") as f:
        f.write("[DEFAULT]\n")
        for key, value in DEFAULTS.items():
            f.write(f"{key} = {value}\n")
        f.write("# jwt_secret = change-me\n")

    print(f"\nExample configuration written to {example}")

if __name__ == "__main__":
    main()
