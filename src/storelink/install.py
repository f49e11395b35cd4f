import asyncio
import dataclasses
from datetime import datetime
from typing import Dict, List, Optional

from storelink.exceptions import StorelinkConfigurationError
from storelink.linker import StoreInstaller, StoreLinker
from storelink.packages import FinalizeResult, InstallRecord
from storelink.plan import InstallPlan
from storelink.project import LinkOptions
from storelink.reconcile import ReconcileReport
from storelink.util import _info


@dataclasses.dataclass(slots=True)
class LinkSummary:
    records: Dict[str, InstallRecord] = dataclasses.field(default_factory=dict)
    reports: List[ReconcileReport] = dataclasses.field(default_factory=list)
    skipped_dependents: int = 0
    store_files_written: int = 0
    finalize_result: Optional[FinalizeResult] = None

    @property
    def entries_created(self) -> int:
        return sum(len(r.created) for r in self.reports)

    @property
    def entries_removed(self) -> int:
        return sum(len(r.removed) for r in self.reports)

    @property
    def entries_kept(self) -> int:
        return sum(len(r.kept) for r in self.reports)


async def link_plan(
    plan: InstallPlan,
    opts: LinkOptions,
    *,
    linker: Optional[StoreLinker] = None,
    installer: Optional[StoreInstaller] = None,
) -> LinkSummary:
    if linker is None:
        linker = StoreLinker()
    summary = LinkSummary()

    for planned in plan.packages:
        if not linker.supports_package(planned.package, opts):
            raise StorelinkConfigurationError(
                "The store linker is not the active linker;"
                f" refusing to link {planned.package}"
            )

    if installer is None:
        installer = linker.make_installer(opts)
    for planned in plan.packages:
        record = await installer.install_package(
            planned.package, planned.fetch_result
        )
        summary.records[planned.package.locator_hash] = record

    await installer.store.wait_for_population()
    summary.store_files_written = installer.store.files_written

    start_time = datetime.now()
    results = await asyncio.gather(
        *(
            installer.attach_internal_dependencies(
                planned.package.locator, planned.dependencies
            )
            for planned in plan.packages
        )
    )
    for report in results:
        if report is None:
            summary.skipped_dependents += 1
        else:
            summary.reports.append(report)
    end_time = datetime.now()
    _info(
        f"Linked {len(summary.reports)} dependency directories"
        f" ({summary.entries_created} created, {summary.entries_kept} unchanged,"
        f" {summary.entries_removed} removed), took: {end_time - start_time}"
    )

    summary.finalize_result = await installer.finalize_install()
    return summary
