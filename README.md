# tdexa

Analytics building blocks for TDEX liquidity markets. `tdexa` discovers
markets from a provider registry, collects each market's prices and balances
on a schedule, stores them, and returns them for a chosen time range,
optionally valued in a fiat reference currency.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Command line

### `tdexa`

The `tdexa` command manages the client's settings, kept in a JSON file
`state.json` in the per-user data directory (`~/.tdexa` on Linux,
`~/Library/Application Support/Tdexa` on macOS, `%LOCALAPPDATA%\Tdexa` on
Windows). `tdexa.cli.default_state_path()` returns its location.

Write the daemon address and TLS mode (defaults `localhost:9000` and `4`):

```
tdexa config --rpcserver localhost:9000 --tls_mod 4
```

TLS modes that can be stored:

| mode | meaning |
|------|---------|
| 0 | TLS, the client does not verify the server |
| 1 | TLS, server certificate signed by a third-party CA |
| 2 | TLS, trusted server certificate from a PEM file (`tls_cert_path`) |
| 3 | TLS, server verified with a CA certificate file (`tls_cert_path`) |
| 4 | no TLS, unencrypted transport |

Set a single key, or print everything that is stored:

```
tdexa config set tls_cert_path /path/to/cert.pem
tdexa config print
```

`config` with no sub-command stores only `rpcserver` and `tls_mod`; use
`config set` for any other key. Failures are printed to standard error
prefixed with `[tower]` and the command exits with status 1. The same state
file can be read and merged from Python with `tdexa.cli.get_state(path)` and
`tdexa.cli.set_state(data, path)`.

### `tdexa-datagen`

Appends about four months of synthetic points, one every five minutes for
markets `1` and `2`, in InfluxDB line protocol, to a prices file and a
balances file (by default `./script/prices.txt` and `./script/balances.txt`):

```
tdexa-datagen --prices prices.txt --balances balances.txt
```

From Python, `tdexa.datagen.generate(prices_path, balances_path, now)` does
the same and returns the number of time instants written.

## Library

### Domain and request types

`tdexa.domain` holds the entities (`Market`, `Filter`, `MarketBalance`,
`MarketPrice`, `Page`) and the repository and rate interfaces as protocols.
Pages default to page 1 with 10 entries when a value is missing or not
positive:

```python
from tdexa.domain import new_page

page = new_page(0, 0)   # Page(number=1, size=10)
```

`tdexa.types` holds the application types. A `TimeRange` is either one
`PredefinedPeriod` (last hour, last day, last month, last three months, year
to date, all since 2022) or a `CustomPeriod` of RFC 3339 start and end dates.
`TimeRange.validate()` rejects a range with neither or both, and
`TimeRange.start_and_end(now)` returns the concrete bounds. Assets must be
32-byte hex strings; invalid fields raise `ValidationError`, whose message
lists each failing field, e.g.
`BaseAsset: asset is not in hex format; QuoteAsset: asset is not in hex format; Url: must be a valid URL.`

### Errors

`tdexa.errors.HexagonalError` carries a `Layer` and a `Code`;
`application_layer_error(code, message)` and its siblings create them.
`status_for_error(err)` maps an error to a `(StatusCode, message)` pair:
not found, invalid argument, or internal.

### Services and jobs

`tdexa.services` provides `MarketBalanceService`, `MarketPriceService` and
`MarketService`. The balance and price services store validated samples,
return them grouped by market id for a time range and page, and collect
samples for every known market on an `@every <n>m` schedule. The price
service can value prices in a reference currency through any object with
`convert_currency`, `is_fiat_symbol_supported` and `get_asset_currency`.

`tdexa.jobs.Scheduler` runs jobs in a background thread on five-field cron
expressions, `@daily`-style descriptors or `@every <duration>`.
`tdexa.jobs.MarketsLoaderService` loads provider markets at start and then
every day at midnight, and stores them in a market repository.

### Market discovery

`tdexa.loader.fetch_liquidity_providers(registry_url)` downloads the
provider registry. `MarketLoaderService` lists providers' markets and fetches
balances and average prices through a trade client produced by a
`client_factory(endpoint, tor_proxy_url)` that the caller supplies;
`parse_endpoint` tells it the address and whether TLS or onion routing is
needed.

### Exchange rates

`tdexa.rater.ExchangeRateClient(asset_currency_pairs)` converts between
currencies over HTTP: crypto to fiat through a coin price API (with `btc`
and `lbtc` treated as bitcoin) and fiat to fiat through an exchange rate
API. A conversion with no known rate raises
`tdexa.domain.CurrencyNotFoundError`.

### Storage

`tdexa.influx.InfluxService(InfluxConfig(...))` writes and queries balance
and price samples over the InfluxDB v2 HTTP API:

```python
from tdexa.influx import InfluxConfig, InfluxService, market_ids_filter

service = InfluxService(
    InfluxConfig(org="example", auth_token="token",
                 db_url="http://localhost:8086", analytics_bucket="analytics")
)

market_ids_filter(["2"], "market_balance")
# '(r._measurement == "market_balance" and r.market_id=="2")'
```

`tdexa.postgres.PostgresMarketRepository(connection, paramstyle)` stores
markets through any DB-API connection (`paramstyle` one of `format`,
`qmark`, `numeric`, `dollar`); inserting a duplicate market is ignored.
Filters become one parameterised query:

```python
from tdexa.domain import Filter
from tdexa.postgres import generate_query_and_values

query, values = generate_query_and_values(
    [Filter(url="test1", base_asset="test2", quote_asset="test3")]
)
# query == "SELECT * FROM market WHERE (url=$1 AND base_asset=$2 AND quote_asset=$3)"
# values == ["test1", "test2", "test3"]
```

### Request routing

`tdexa.routing.classify_request(method, headers)` decides whether a request
is for the REST gateway (`GET` or JSON body), gRPC-Web (including its CORS
preflight) or plain gRPC.

## What this package does not do

- There is no daemon: nothing here starts a server or wires the services
  together behind an RPC or HTTP endpoint.
- The `tdexa` command only manages settings; it has no commands for querying
  balances, prices, markets or health, and the stored TLS mode is not used
  by anything in the package.
- No trade service client is included; `MarketLoaderService` needs one
  supplied through `client_factory`.
- The market table is not created or migrated; `PostgresMarketRepository`
  expects it to exist, and no database driver is bundled.