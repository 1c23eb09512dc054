"""Software diffing: custom packages, Fleet-maintained apps, App Store apps.

The three sub-collections are matched independently, each on its own
identity (canonical YAML path, catalog slug, store id), and merged into a
single bucket whose entries carry a ``kind``.
"""

from __future__ import annotations

import logging

from fleetplan.diff.models import FieldDiff, ResourceChange, ResourceDiff
from fleetplan.diff.resources import compare_exact, fmt_bool, join
from fleetplan.models.repo import Software, SoftwarePackage
from fleetplan.models.snapshot import CatalogApp, RemoteGroup, RemotePackage, RemoteSoftware, RemoteVendorApp
from fleetplan.utils.text import canonical_software_path, normalize_platform

logger = logging.getLogger(__name__)

PACKAGE = "package"
FLEET_APP = "fleet_app"
STORE_APP = "app_store_app"


def remote_package_key(package: RemotePackage) -> str:
    return canonical_software_path(package.referenced_yaml_path) or canonical_software_path(package.url)


def proposed_package_key(package: SoftwarePackage) -> str:
    return canonical_software_path(package.ref_path) or canonical_software_path(package.url)


def diff_software(current: RemoteSoftware, proposed: Software) -> ResourceDiff:
    rd = ResourceDiff()
    rd.extend(_diff_packages(current, proposed))
    rd.extend(_diff_vendor_apps(current, proposed))
    rd.extend(_diff_store_apps(current, proposed))
    rd.sort()
    return rd


def _diff_packages(current: RemoteSoftware, proposed: Software) -> ResourceDiff:
    rd = ResourceDiff()
    added, matched, deleted, _ = join(current.packages, proposed.packages, remote_package_key, proposed_package_key)

    for key, pkg in added:
        fields = {
            "url": FieldDiff(new=pkg.url),
            "self_service": FieldDiff(new=fmt_bool(pkg.self_service)),
        }
        if pkg.hash_sha256:
            fields["hash_sha256"] = FieldDiff(new=pkg.hash_sha256)
        rd.added.append(ResourceChange(name=key, fields=fields, kind=PACKAGE))

    for key, cur, pkg in matched:
        fields: dict[str, FieldDiff] = {}
        compare_exact(fields, "url", cur.url.strip(), pkg.url.strip())
        compare_exact(fields, "hash_sha256", cur.hash_sha256.strip().lower(), pkg.hash_sha256.strip().lower())
        compare_exact(fields, "self_service", fmt_bool(cur.self_service), fmt_bool(pkg.self_service))
        if fields:
            rd.modified.append(ResourceChange(name=key, fields=fields, kind=PACKAGE))

    for key, _cur in deleted:
        rd.deleted.append(ResourceChange(name=key, kind=PACKAGE))
    return rd


def _diff_vendor_apps(current: RemoteSoftware, proposed: Software) -> ResourceDiff:
    rd = ResourceDiff()
    added, matched, deleted, _ = join(
        current.vendor_apps or [],
        proposed.vendor_apps,
        lambda a: canonical_software_path(a.slug),
        lambda a: canonical_software_path(a.slug),
    )

    for slug, app in added:
        fields = {
            "slug": FieldDiff(new=app.slug),
            "self_service": FieldDiff(new=fmt_bool(app.self_service)),
        }
        rd.added.append(ResourceChange(name=slug, fields=fields, kind=FLEET_APP))

    for slug, cur, app in matched:
        fields: dict[str, FieldDiff] = {}
        compare_exact(fields, "self_service", fmt_bool(cur.self_service), fmt_bool(app.self_service))
        if fields:
            rd.modified.append(ResourceChange(name=slug, fields=fields, kind=FLEET_APP))

    for slug, _cur in deleted:
        rd.deleted.append(ResourceChange(name=slug, kind=FLEET_APP))
    return rd


def _diff_store_apps(current: RemoteSoftware, proposed: Software) -> ResourceDiff:
    rd = ResourceDiff()
    added, matched, deleted, _ = join(
        current.store_apps,
        proposed.store_apps,
        lambda a: a.app_store_id.strip(),
        lambda a: a.app_store_id.strip(),
    )

    for app_id, app in added:
        fields = {
            "app_store_id": FieldDiff(new=app.app_store_id),
            "self_service": FieldDiff(new=fmt_bool(app.self_service)),
        }
        rd.added.append(ResourceChange(name=app_id, fields=fields, kind=STORE_APP))

    for app_id, cur, app in matched:
        fields: dict[str, FieldDiff] = {}
        compare_exact(fields, "self_service", fmt_bool(cur.self_service), fmt_bool(app.self_service))
        if fields:
            rd.modified.append(ResourceChange(name=app_id, fields=fields, kind=STORE_APP))

    for app_id, _cur in deleted:
        rd.deleted.append(ResourceChange(name=app_id, kind=STORE_APP))
    return rd


# --- Fleet-maintained app inference ---

# software title source shared by every Fleet-maintained installer
INSTALLER_SOURCE = "apps"


def catalog_key(name: str, platform: str) -> str:
    name = name.strip().lower()
    platform = normalize_platform(platform)
    if not name or not platform:
        return ""
    return f"{name}|{platform}"


def infer_vendor_apps(
    group: RemoteGroup,
    catalog: list[CatalogApp] | None,
    proposed_packages: list[SoftwarePackage] | None = None,
) -> list[RemoteVendorApp] | None:
    """Rebuild a team's Fleet-maintained apps from its software titles.

    Fleet's /teams endpoint sometimes reports ``fleet_maintained_apps:
    null`` for teams that have them. The team's software titles still list
    the installers, so a title whose (name, platform) matches exactly one
    catalog entry is taken as that catalog app, carrying the title's
    self_service flag. Only titles with source "apps" qualify, and titles
    whose installer URL belongs to a custom package are never considered.

    Returns None when nothing could be inferred; callers then treat every
    declared app as added, which is never wrong in the unsafe direction.
    """
    if not catalog or not group.software_titles:
        return None

    claimed_urls = {canonical_software_path(p.url) for p in group.software.packages}
    claimed_urls.update(canonical_software_path(p.url) for p in proposed_packages or [])
    claimed_urls.discard("")

    by_key: dict[str, list[CatalogApp]] = {}
    for app in catalog:
        key = catalog_key(app.name, app.platform)
        if key:
            by_key.setdefault(key, []).append(app)

    inferred: dict[str, RemoteVendorApp] = {}
    for title in group.software_titles:
        if title.source.strip().lower() != INSTALLER_SOURCE:
            continue
        package = title.software_package
        if package is None or title.app_store_app is not None:
            continue
        url = canonical_software_path(package.package_url)
        if url and url in claimed_urls:
            continue
        matches = by_key.get(catalog_key(title.name, package.platform), [])
        if len(matches) != 1:
            if len(matches) > 1:
                logger.debug("title %r matches %d catalog apps, not inferring", title.name, len(matches))
            continue
        slug = canonical_software_path(matches[0].slug)
        if slug and slug not in inferred:
            inferred[slug] = RemoteVendorApp(slug=slug, self_service=package.self_service)

    if not inferred:
        return None
    logger.debug("inferred %d fleet-maintained apps for team %s", len(inferred), group.name)
    return [inferred[slug] for slug in sorted(inferred)]
