import pulumi
import pytest

PROJECT = "project"

SAS_TOKEN = "sv=2022-11-02&sr=b&sp=r&sig=mock"
ACCOUNT_KEY = "mock-account-key"

# Envelope the engine puts around inputs that contain secret values.
SECRET_SIG_KEY = "4dabf18193072939515e22adb298388d"
SECRET_SIG = "1b47061264138c4ac30d75fd1eb44270"

# Input that carries the physical name for resources whose name output is not
# an input of the same name.
NAME_INPUTS = {
    "azure-native:resources:ResourceGroup": "resourceGroupName",
    "azure-native:storage:StorageAccount": "accountName",
    "azure-native:storage:BlobContainer": "containerName",
    "azure-native:storage:Blob": "blobName",
    "azure-native:sql:Server": "serverName",
    "azure-native:sql:Database": "databaseName",
}


class TopologyMocks(pulumi.runtime.Mocks):
    def __init__(self):
        self.registered = []
        self.calls = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.registered.append(args)
        state = dict(args.inputs)
        name_input = NAME_INPUTS.get(args.typ)
        if name_input:
            state["name"] = args.inputs.get(name_input, args.name)
        state.setdefault("name", args.name)
        if args.typ == "azure-native:web:WebApp":
            state["defaultHostName"] = f"{state['name']}.azurewebsites.net"
        return [f"{args.name}_id", state]

    def call(self, args: pulumi.runtime.MockCallArgs):
        self.calls.append(args)
        if args.token.endswith(":listStorageAccountServiceSAS"):
            return {"serviceSasToken": SAS_TOKEN}
        if args.token.endswith(":listStorageAccountKeys"):
            return {
                "keys": [
                    {
                        "keyName": "key1",
                        "value": ACCOUNT_KEY,
                        "permissions": "FULL",
                        "creationTime": "2024-01-01T00:00:00Z",
                    },
                ],
            }
        return {}

    def inputs_of(self, typ: str):
        return [r.inputs for r in self.registered if r.typ == typ]


def set_stack_config(values):
    pulumi.runtime.set_all_config({f"{PROJECT}:{k}": v for k, v in values.items()})


@pytest.fixture(autouse=True)
def mocks():
    mocks = TopologyMocks()
    pulumi.runtime.set_mocks(mocks, project=PROJECT, stack="test", preview=False)
    set_stack_config({})
    return mocks


@pytest.fixture
def topology_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("location: westeurope\ntags:\n  env: test\n")
    return str(path)


@pytest.fixture
def stack_config():
    return set_stack_config


def unwrap_secret(value):
    """Return the plain value of a secret-wrapped mock input."""
    if isinstance(value, dict) and value.get(SECRET_SIG_KEY) == SECRET_SIG:
        return value["value"]
    return value
