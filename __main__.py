# main.py
import pulumi
from topology import deploy

CONFIG_FILE = "config.yaml"


def main():
    try:
        deploy(CONFIG_FILE)
    except pulumi.ConfigMissingError as e:
        pulumi.log.error(f"Missing stack configuration: {e}")
        raise
    except Exception as e:
        pulumi.log.error(f"Failed during resource build: {e}")
        raise


if __name__ == "__main__":
    main()
