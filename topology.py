import pulumi
from pulumi_azure_native import resources, sql, storage, web
from typing import Any, Dict

from config import SqlCredentials, TopologyConfig, load_config, load_sql_credentials

SQL_CONNECTION_STRING_TEMPLATE = (
    "Server= tcp:{server}.database.windows.net;"
    "initial catalog={database};"
    "userID={username};"
    "password={pwd};"
    "Min Pool Size=0;Max Pool Size=30;Persist Security Info=true;"
)

CONTAINER_PUBLIC_ACCESS = {
    "private": storage.PublicAccess.NONE,
    "blob": storage.PublicAccess.BLOB,
    "container": storage.PublicAccess.CONTAINER,
}


def sql_connection_string(server: str, database: str, username: str, pwd: str) -> str:
    return SQL_CONNECTION_STRING_TEMPLATE.format(
        server=server, database=database, username=username, pwd=pwd
    )


def canonical_blob_resource(account: str, container: str, blob: str) -> str:
    return f"/blob/{account}/{container}/{blob}"


def blob_read_url(account: str, container: str, blob: str, sas_token: str) -> str:
    return f"https://{account}.blob.core.windows.net/{container}/{blob}?{sas_token}"


def storage_connection_string(account: str, key: str) -> str:
    return (
        f"DefaultEndpointsProtocol=https;AccountName={account};"
        f"AccountKey={key};EndpointSuffix=core.windows.net"
    )


class WebsiteTopologyBuilder:
    """Declares the website topology and hands it to the Pulumi engine.

    Every method only references resources that were declared before it, so
    the dependency graph the engine sees is acyclic by construction.
    """

    def __init__(self, topology: TopologyConfig, credentials: SqlCredentials):
        self.topology = topology
        self.credentials = credentials
        self.resources: Dict[str, pulumi.CustomResource] = {}
        self.package_url = None
        self.connection_string = None

    def _register(self, name: str, resource: pulumi.CustomResource) -> pulumi.CustomResource:
        self.resources[name] = resource
        pulumi.log.info(f"Declared resource: {name} ({type(resource).__name__})")
        return resource

    def _common_args(self) -> Dict[str, Any]:
        args: Dict[str, Any] = {"location": self.topology.location}
        if self.topology.tags:
            args["tags"] = dict(self.topology.tags)
        return args

    def resource_group(self) -> resources.ResourceGroup:
        return self._register(
            "resource_group",
            resources.ResourceGroup(
                "resourceGroup",
                resource_group_name=self.topology.resource_group,
                **self._common_args(),
            ),
        )

    def storage_account(self, resource_group: resources.ResourceGroup) -> storage.StorageAccount:
        cfg = self.topology.storage
        pulumi.log.debug(f"Storage account '{cfg.account_name}' uses SKU {cfg.sku_name}")
        return self._register(
            "storage_account",
            storage.StorageAccount(
                "storage",
                account_name=cfg.account_name,
                resource_group_name=resource_group.name,
                kind=storage.Kind.STORAGE_V2,
                sku=storage.SkuArgs(name=cfg.sku_name),
                **self._common_args(),
            ),
        )

    def app_service_plan(self, resource_group: resources.ResourceGroup) -> web.AppServicePlan:
        cfg = self.topology.app_service_plan
        return self._register(
            "app_service_plan",
            web.AppServicePlan(
                "asp",
                name=cfg.name,
                resource_group_name=resource_group.name,
                kind=cfg.kind,
                sku=web.SkuDescriptionArgs(tier=cfg.tier, name=cfg.size, size=cfg.size),
                **self._common_args(),
            ),
        )

    def sql_server(self, resource_group: resources.ResourceGroup) -> sql.Server:
        cfg = self.topology.sql
        return self._register(
            "sql_server",
            sql.Server(
                "sql",
                server_name=cfg.server_name,
                resource_group_name=resource_group.name,
                administrator_login=self.credentials.username,
                administrator_login_password=self.credentials.password,
                version=cfg.version,
                **self._common_args(),
            ),
        )

    def container(self, resource_group: resources.ResourceGroup,
                  account: storage.StorageAccount) -> storage.BlobContainer:
        cfg = self.topology.storage
        return self._register(
            "container",
            storage.BlobContainer(
                "zips",
                container_name=cfg.container_name,
                account_name=account.name,
                resource_group_name=resource_group.name,
                public_access=CONTAINER_PUBLIC_ACCESS[cfg.container_access],
            ),
        )

    def database(self, resource_group: resources.ResourceGroup, server: sql.Server) -> sql.Database:
        cfg = self.topology.sql
        return self._register(
            "database",
            sql.Database(
                "db",
                database_name=cfg.database_name,
                resource_group_name=resource_group.name,
                server_name=server.name,
                sku=sql.SkuArgs(name=cfg.service_objective),
                **self._common_args(),
            ),
        )

    def archive_blob(self, resource_group: resources.ResourceGroup, account: storage.StorageAccount,
                     container: storage.BlobContainer) -> storage.Blob:
        cfg = self.topology.storage
        return self._register(
            "archive_blob",
            storage.Blob(
                "zip",
                blob_name=cfg.blob_name,
                account_name=account.name,
                container_name=container.name,
                resource_group_name=resource_group.name,
                type=storage.BlobType.BLOCK,
                source=pulumi.FileArchive(cfg.archive_path),
            ),
        )

    def signed_blob_read_url(self, resource_group: resources.ResourceGroup,
                             account: storage.StorageAccount, container: storage.BlobContainer,
                             blob: storage.Blob) -> pulumi.Output:
        """Read-only service SAS URL for ``blob``, resolved once all names are known."""
        cfg = self.topology.storage
        canonical = pulumi.Output.all(account.name, container.name, blob.name).apply(
            lambda args: canonical_blob_resource(*args)
        )
        sas = storage.list_storage_account_service_sas_output(
            resource_group_name=resource_group.name,
            account_name=account.name,
            protocols=storage.HttpProtocol.HTTPS,
            shared_access_start_time=cfg.sas_start,
            shared_access_expiry_time=cfg.sas_expiry,
            resource="b",
            permissions="r",
            canonicalized_resource=canonical,
        )
        token = sas.apply(lambda result: result.service_sas_token)
        return pulumi.Output.all(account.name, container.name, blob.name, token).apply(
            lambda args: blob_read_url(*args)
        )

    def database_connection_string(self, server: sql.Server, database: sql.Database) -> pulumi.Output:
        username = self.credentials.username
        # password is secret, so the combined output is secret too
        return pulumi.Output.all(server.name, database.name, self.credentials.password).apply(
            lambda args: sql_connection_string(args[0], args[1], username, args[2])
        )

    def storage_account_connection_string(self, resource_group: resources.ResourceGroup,
                                  account: storage.StorageAccount) -> pulumi.Output:
        keys = storage.list_storage_account_keys_output(
            resource_group_name=resource_group.name,
            account_name=account.name,
        )
        primary_key = keys.apply(lambda result: result.keys[0].value)
        return pulumi.Output.secret(
            pulumi.Output.all(account.name, primary_key).apply(
                lambda args: storage_connection_string(*args)
            )
        )

    def web_app(self, resource_group: resources.ResourceGroup, plan: web.AppServicePlan,
                package_url: pulumi.Output, connection_string: pulumi.Output) -> web.WebApp:
        cfg = self.topology.web_app
        return self._register(
            "web_app",
            web.WebApp(
                "app",
                name=cfg.name,
                resource_group_name=resource_group.name,
                server_farm_id=plan.id,
                site_config=web.SiteConfigArgs(
                    app_settings=[
                        web.NameValuePairArgs(name="WEBSITE_RUN_FROM_PACKAGE", value=package_url),
                    ],
                    connection_strings=[
                        web.ConnStringInfoArgs(
                            name="db",
                            type=web.ConnectionStringType.SQL_AZURE,
                            connection_string=connection_string,
                        ),
                    ],
                ),
                **self._common_args(),
            ),
        )

    def build(self) -> Dict[str, pulumi.Output]:
        rg = self.resource_group()

        account = self.storage_account(rg)
        plan = self.app_service_plan(rg)
        server = self.sql_server(rg)

        container = self.container(rg, account)
        database = self.database(rg, server)

        blob = self.archive_blob(rg, account, container)

        self.package_url = self.signed_blob_read_url(rg, account, container, blob)
        self.connection_string = self.database_connection_string(server, database)

        app = self.web_app(rg, plan, self.package_url, self.connection_string)

        return {
            "endpoint": app.default_host_name,
            "storageConnectionString": self.storage_account_connection_string(rg, account),
        }


def deploy(config_path: str) -> Dict[str, pulumi.Output]:
    """Load configuration, declare the topology and export its outputs."""
    topology = TopologyConfig.from_dict(load_config(config_path))
    # Fails with ConfigMissingError before anything is declared.
    credentials = load_sql_credentials(pulumi.Config())

    builder = WebsiteTopologyBuilder(topology, credentials)
    outputs = builder.build()

    for name, value in outputs.items():
        pulumi.export(name, value)
    return outputs
