"""
Invalidation table: which cached regions go stale when an entity is mutated.

A region Y is listed under entity X whenever Y's cached view embeds data
copied from X (a student's name in enrollment rows, a fee balance in the
student list). Edges are declared explicitly; nothing is inferred
transitively. One table serves every institution context; the context only
namespaces the resulting keys.
"""

from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Tuple, Union

from feedesk.core.enums import EntityType, InstitutionContext, Operation

RegionKey = Tuple[Hashable, ...]

STUDENTS = "students"
ENROLLMENTS = "enrollments"
RESERVATIONS = "reservations"
ADMISSIONS = "admissions"
ATTENDANCE = "attendance"
TUITION = "tuition"
TRANSPORT = "transport"
INCOME = "income"
EXPENDITURE = "expenditure"


def root_key(context: InstitutionContext, resource: str) -> RegionKey:
    return (InstitutionContext(context).value, resource)


def detail_key(context: InstitutionContext, resource: str, entity_id: Hashable) -> RegionKey:
    return (InstitutionContext(context).value, resource, "detail", entity_id)


@dataclass(frozen=True)
class Root:
    """Static descriptor: the list/root region of a resource."""

    resource: str
    requires_id = False

    def keys(self, context: InstitutionContext, entity_id: Optional[Hashable] = None) -> List[RegionKey]:
        return [root_key(context, self.resource)]


@dataclass(frozen=True)
class Detail:
    """Generator descriptor: the detail region of the mutated record. Needs its id."""

    resource: str
    requires_id = True

    def keys(self, context: InstitutionContext, entity_id: Optional[Hashable] = None) -> List[RegionKey]:
        if entity_id is None:
            return []
        return [detail_key(context, self.resource, entity_id)]


Descriptor = Union[Root, Detail]

INVALIDATION_RULES: Dict[Tuple[EntityType, Operation], Tuple[Descriptor, ...]] = {
    # Student name appears in enrollment, attendance and reservation rows.
    (EntityType.STUDENT, Operation.CREATE): (
        Root(STUDENTS), Root(ENROLLMENTS), Root(RESERVATIONS), Root(ADMISSIONS),
    ),
    (EntityType.STUDENT, Operation.UPDATE): (
        Detail(STUDENTS), Root(STUDENTS), Root(ENROLLMENTS), Root(ATTENDANCE),
        Root(RESERVATIONS), Root(ADMISSIONS),
    ),
    (EntityType.STUDENT, Operation.DELETE): (
        Root(STUDENTS), Root(ENROLLMENTS), Root(ATTENDANCE), Root(RESERVATIONS), Root(ADMISSIONS),
    ),
    (EntityType.RESERVATION, Operation.CREATE): (Root(RESERVATIONS), Root(ADMISSIONS)),
    (EntityType.RESERVATION, Operation.UPDATE): (
        Detail(RESERVATIONS), Root(RESERVATIONS), Root(ADMISSIONS),
    ),
    (EntityType.RESERVATION, Operation.DELETE): (Root(RESERVATIONS), Root(ADMISSIONS)),
    (EntityType.ENROLLMENT, Operation.CREATE): (Root(ENROLLMENTS), Root(STUDENTS)),
    (EntityType.ENROLLMENT, Operation.UPDATE): (
        Detail(ENROLLMENTS), Root(ENROLLMENTS), Root(STUDENTS),
    ),
    (EntityType.ENROLLMENT, Operation.DELETE): (Root(ENROLLMENTS), Root(STUDENTS)),
    (EntityType.ATTENDANCE, Operation.CREATE): (Root(ATTENDANCE), Root(STUDENTS)),
    (EntityType.ATTENDANCE, Operation.UPDATE): (
        Detail(ATTENDANCE), Root(ATTENDANCE), Root(STUDENTS),
    ),
    (EntityType.ATTENDANCE, Operation.DELETE): (Root(ATTENDANCE), Root(STUDENTS)),
    # A fee payment creates an income record and changes balances shown on student and enrollment lists.
    (EntityType.FEE, Operation.PAYMENT): (
        Root(TUITION), Root(TRANSPORT), Root(INCOME), Root(STUDENTS), Root(ENROLLMENTS),
    ),
    (EntityType.FEE, Operation.UPDATE): (
        Detail(TUITION), Root(TUITION), Detail(TRANSPORT), Root(TRANSPORT),
        Root(STUDENTS), Root(ENROLLMENTS),
    ),
    # Income rows drive reservation payment status.
    (EntityType.INCOME, Operation.CREATE): (Root(INCOME), Root(RESERVATIONS)),
    (EntityType.INCOME, Operation.UPDATE): (Detail(INCOME), Root(INCOME), Root(RESERVATIONS)),
    (EntityType.INCOME, Operation.DELETE): (Root(INCOME), Root(RESERVATIONS)),
    (EntityType.EXPENDITURE, Operation.CREATE): (Root(EXPENDITURE),),
    (EntityType.EXPENDITURE, Operation.UPDATE): (Detail(EXPENDITURE), Root(EXPENDITURE)),
    (EntityType.EXPENDITURE, Operation.DELETE): (Root(EXPENDITURE),),
}
