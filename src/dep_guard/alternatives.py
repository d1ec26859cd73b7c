from __future__ import annotations

DEPRECATED_ALTERNATIVES: dict[str, tuple[str, ...]] = {
    "moment": ("date-fns", "luxon", "dayjs"),
    "moment-timezone": ("luxon", "date-fns-tz"),
    "request": ("axios", "node-fetch", "undici", "got"),
    "request-promise": ("axios", "node-fetch", "undici", "got"),
    "request-promise-native": ("axios", "node-fetch", "undici", "got"),
    "lodash": ("lodash-es", "radash", "remeda"),
    "underscore": ("lodash-es", "radash", "remeda"),
    "bluebird": ("native Promise", "p-map", "p-limit"),
    "q": ("native Promise", "p-defer"),
    "async": ("p-queue", "p-limit", "p-map"),
    "crypto-js": ("Web Crypto API", "noble-ciphers"),
    "colors": ("chalk", "picocolors", "kleur"),
    "colors.js": ("chalk", "picocolors", "kleur"),
    "istanbul": ("c8", "nyc"),
    "gulp": ("Vite", "esbuild", "Rollup"),
    "bower": ("npm", "pnpm", "yarn"),
    "uuid": ("crypto.randomUUID()", "nanoid"),
    "querystring": ("URLSearchParams (built-in)",),
    "node-uuid": ("crypto.randomUUID()", "nanoid"),
    "nomnom": ("commander", "yargs", "citty"),
    "optimist": ("commander", "yargs", "citty"),
}


def get_alternatives(package_name: str) -> tuple[str, ...]:
    """
    返回已知的替代包；没有记录时返回空元组。
    """
    return DEPRECATED_ALTERNATIVES.get(package_name, ())


def is_known_deprecated(package_name: str) -> bool:
    """
    本地启发式判断：包是否在已知弃用列表中（不访问 registry）。
    """
    return package_name in DEPRECATED_ALTERNATIVES
