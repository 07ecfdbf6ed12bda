from tripsplit.schemas.debt import (
    AwaitingConfirmationResponse,
    CreditorDetail,
    CreditorDetailResponse,
    CreditorOutstandingResponse,
    CreditorSettlementResponse,
    DebtOverview,
    DebtOverviewResponse,
    SettlementEventResponse,
    TripOutstanding,
)


def money(value) -> float:
    """Round for display; internal sums stay unrounded."""
    return round(value or 0.0, 2)


def _trips(trips):
    return [
        TripOutstanding(
            trip_id=t.trip_id,
            total=money(t.total),
            bill_count=t.bill_count,
            representative_bill_id=t.representative_bill_id,
        )
        for t in trips
    ]


def present_overview(overview: DebtOverview) -> DebtOverviewResponse:
    return DebtOverviewResponse(
        user_id=overview.user_id,
        trip_id=overview.trip_id,
        outstanding_total=money(sum(c.total for c in overview.outstanding)),
        outstanding=[
            CreditorOutstandingResponse(
                creditor_id=c.creditor_id,
                total=money(c.total),
                bill_count=c.bill_count,
                trip_count=c.trip_count,
                last_activity=c.last_activity,
                trips=_trips(c.trips),
            )
            for c in overview.outstanding
        ],
        paid=[
            CreditorSettlementResponse(
                creditor_id=s.creditor_id,
                pending=money(s.pending),
                confirmed=money(s.confirmed),
            )
            for s in overview.paid
        ],
        awaiting_confirmation=[
            AwaitingConfirmationResponse(
                source=e.source,
                record_id=e.record_id,
                bill_id=e.bill_id,
                debtor_user_id=e.debtor_user_id,
                amount=money(e.amount) if e.amount is not None else None,
                trip_id=e.trip_id,
                created_at=e.created_at,
            )
            for e in overview.awaiting_confirmation
        ],
        generated_at=overview.generated_at,
    )


def present_creditor_detail(detail: CreditorDetail) -> CreditorDetailResponse:
    outstanding = detail.outstanding
    return CreditorDetailResponse(
        creditor_id=detail.creditor_id,
        trip_id=detail.trip_id,
        outstanding_total=money(outstanding.total if outstanding else 0.0),
        bill_count=outstanding.bill_count if outstanding else 0,
        trips=_trips(outstanding.trips) if outstanding else [],
        pending=money(detail.settlement.pending),
        confirmed=money(detail.settlement.confirmed),
        events=[
            SettlementEventResponse(
                source=e.source,
                record_id=e.record_id,
                bill_id=e.bill_id,
                amount=money(e.amount) if e.amount is not None else None,
                status=e.status.value,
                trip_id=e.trip_id,
                created_at=e.created_at,
            )
            for e in detail.events
        ],
    )
