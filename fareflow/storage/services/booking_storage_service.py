# ==============================================================================
# fareflow/storage/services/booking_storage_service.py
# ==============================================================================
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional

import psycopg2
from psycopg2.extras import Json

from fareflow.storage.db_service import StorageService

logger = logging.getLogger(__name__)

# Statuses that block cancellation and ticketing
TERMINAL_STATUSES = ('cancelled', 'ticketed', 'completed')
IN_FLIGHT_ISSUE_STATUSES = ('ISS_PRC', 'ISSUED')
CANCELLABLE_STATES = ('pending', 'to_be_paid', 'ISS_PRC')

BOOKING_COLUMNS = (
    'order_num', 'pnr', 'air_pnr', 'solution_id', 'fare_type', 'plating_carrier', 'currency',
    'adt_fare', 'adt_tax', 'chd_fare', 'chd_tax', 'inf_fare', 'inf_tax',
    'adults', 'children', 'infants', 'fees_total', 'agent_fee', 'total_amount',
    'contact_name', 'contact_email', 'contact_phone',
    'status', 'payment_status', 'issue_status',
    'merchant_order', 'buyer_order', 'serial_num', 'payment_gate', 'permit_void',
    'last_void_time', 'void_service_fee', 'void_currency', 'inform_type',
    'reject_reason', 'issue_remark', 'ticket_issued_payload', 'offer_snapshot',
    'booking_date', 'cancelled_at',
)
BOOKING_JSON_COLUMNS = ('ticket_issued_payload', 'offer_snapshot')

PASSENGER_COLUMNS = (
    'psg_type', 'sex', 'birthday', 'first_name', 'last_name', 'nationality',
    'card_type', 'card_num', 'card_expired_date', 'associated_passenger_index', 'ticket_num',
)

SEGMENT_COLUMNS = (
    'segment_id', 'airline', 'equipment', 'departure_terminal', 'arrival_terminal',
    'departure_date', 'arrival_date', 'departure', 'arrival', 'flight_num',
    'air_pnr', 'pnr', 'cabin_class', 'booking_code',
)


@dataclass
class Booking:
    id: int
    order_num: str
    pnr: Optional[str] = None
    air_pnr: Optional[str] = None
    solution_id: Optional[str] = None
    fare_type: Optional[str] = None
    plating_carrier: Optional[str] = None
    currency: Optional[str] = None
    adt_fare: Decimal = Decimal('0.00')
    adt_tax: Decimal = Decimal('0.00')
    chd_fare: Decimal = Decimal('0.00')
    chd_tax: Decimal = Decimal('0.00')
    inf_fare: Decimal = Decimal('0.00')
    inf_tax: Decimal = Decimal('0.00')
    adults: int = 0
    children: int = 0
    infants: int = 0
    fees_total: Decimal = Decimal('0.00')
    agent_fee: Decimal = Decimal('0.00')
    total_amount: Decimal = Decimal('0.00')
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    status: str = 'pending'
    payment_status: str = 'unpaid'
    issue_status: str = 'PENDING'
    merchant_order: Optional[str] = None
    buyer_order: Optional[str] = None
    serial_num: Optional[str] = None
    payment_gate: Optional[str] = None
    permit_void: Optional[int] = None
    last_void_time: Optional[str] = None
    void_service_fee: Optional[Decimal] = None
    void_currency: Optional[str] = None
    inform_type: Optional[str] = None
    reject_reason: Optional[str] = None
    issue_remark: Optional[str] = None
    ticket_issued_payload: Optional[Dict[str, Any]] = None
    offer_snapshot: Optional[Dict[str, Any]] = None
    booking_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['lifecycle_state'] = self.lifecycle_state
        return data

    @property
    def lifecycle_state(self) -> str:
        """Single state combining the local status with the provider issue status"""
        if self.status == 'cancelled':
            return 'cancelled'
        if self.status in ('ticketed', 'completed') or self.issue_status == 'ISSUED':
            return 'ticketed'
        if self.issue_status == 'ISS_PRC':
            return 'ISS_PRC'
        return self.status

    @property
    def is_cancellable(self) -> bool:
        return self.status not in TERMINAL_STATUSES and self.lifecycle_state in CANCELLABLE_STATES

    @property
    def is_ticketable(self) -> bool:
        return self.status not in TERMINAL_STATUSES and self.issue_status != 'ISSUED'


@dataclass
class BookingPassenger:
    id: int
    booking_id: int
    passenger_index: int
    psg_type: Optional[str] = None
    sex: Optional[str] = None
    birthday: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    nationality: Optional[str] = None
    card_type: Optional[str] = None
    card_num: Optional[str] = None
    card_expired_date: Optional[str] = None
    associated_passenger_index: Optional[int] = None
    ticket_num: Optional[str] = None


@dataclass
class BookingSegmentTicket:
    id: int
    booking_segment_id: int
    booking_passenger_id: int
    ticket_num: Optional[str] = None


@dataclass
class BookingSegment:
    id: int
    booking_id: int
    segment_no: int
    segment_id: Optional[str] = None
    airline: Optional[str] = None
    equipment: Optional[str] = None
    departure_terminal: Optional[str] = None
    arrival_terminal: Optional[str] = None
    departure_date: Optional[datetime] = None
    arrival_date: Optional[datetime] = None
    departure: Optional[str] = None
    arrival: Optional[str] = None
    flight_num: Optional[str] = None
    air_pnr: Optional[str] = None
    pnr: Optional[str] = None
    cabin_class: Optional[str] = None
    booking_code: Optional[str] = None
    tickets: List[BookingSegmentTicket] = field(default_factory=list)


@dataclass
class BookingGraph:
    """A booking with its passengers, segments and per-segment tickets"""
    booking: Booking
    passengers: List[BookingPassenger] = field(default_factory=list)
    segments: List[BookingSegment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self.booking.to_dict()
        data['passengers'] = [asdict(p) for p in self.passengers]
        data['segments'] = [asdict(s) for s in self.segments]
        return data


class BookingStorageService:
    """
    Keyed upserts and reads for bookings and their child rows.

    Write methods take the cursor of a caller-owned transaction
    (StorageService.transaction()) and let database errors propagate so the
    caller's transaction rolls back. Each upsert only overwrites the columns it
    is given a non-null value for.
    """

    def __init__(self, storage: StorageService):
        self.storage = storage

    # ====================================================================
    # BOOKINGS
    # ====================================================================

    def upsert_booking(self, cur, order_num: str, fields: Dict[str, Any]) -> int:
        """Insert or merge a booking by order number and return its id"""
        columns = self._checked_columns(fields, BOOKING_COLUMNS)
        columns = [c for c in columns if c != 'order_num']
        values = [self._adapt(c, fields[c]) for c in columns]

        insert_columns = ', '.join(['order_num'] + columns)
        placeholders = ', '.join(['%s'] * (len(columns) + 1))
        updates = ''.join(f"{c} = COALESCE(EXCLUDED.{c}, bookings.{c}), " for c in columns)

        cur.execute(f"""
            INSERT INTO bookings ({insert_columns})
            VALUES ({placeholders})
            ON CONFLICT (order_num) DO UPDATE SET
                {updates}updated_at = NOW()
            RETURNING id;
        """, [order_num] + values)
        return cur.fetchone()[0]

    def update_booking(self, cur, booking_id: int, **fields) -> None:
        """Set the given columns unconditionally (status transitions)"""
        columns = self._checked_columns(fields, BOOKING_COLUMNS)
        if not columns:
            return
        assignments = ', '.join(f"{c} = %s" for c in columns)
        cur.execute(
            f"UPDATE bookings SET {assignments}, updated_at = NOW() WHERE id = %s;",
            [self._adapt(c, fields[c]) for c in columns] + [booking_id]
        )

    def get_booking_by_order_num(self, cur, order_num: str, for_update: bool = False) -> Optional[Booking]:
        lock = " FOR UPDATE" if for_update else ""
        cur.execute(f"""
            SELECT id, {', '.join(BOOKING_COLUMNS)}, created_at, updated_at
            FROM bookings WHERE order_num = %s{lock};
        """, (order_num,))
        row = cur.fetchone()
        if not row:
            return None
        return self._row_to_booking(row)

    # ====================================================================
    # PASSENGERS
    # ====================================================================

    def upsert_passenger(self, cur, booking_id: int, passenger_index: int, fields: Dict[str, Any]) -> int:
        columns = self._checked_columns(fields, PASSENGER_COLUMNS)
        values = [fields[c] for c in columns]
        insert_columns = ', '.join(['booking_id', 'passenger_index'] + columns)
        placeholders = ', '.join(['%s'] * (len(columns) + 2))
        updates = ''.join(f"{c} = COALESCE(EXCLUDED.{c}, booking_passengers.{c}), " for c in columns)

        cur.execute(f"""
            INSERT INTO booking_passengers ({insert_columns})
            VALUES ({placeholders})
            ON CONFLICT (booking_id, passenger_index) DO UPDATE SET
                {updates}updated_at = NOW()
            RETURNING id;
        """, [booking_id, passenger_index] + values)
        return cur.fetchone()[0]

    def list_passengers(self, cur, booking_id: int) -> List[BookingPassenger]:
        cur.execute(f"""
            SELECT id, booking_id, passenger_index, {', '.join(PASSENGER_COLUMNS)}
            FROM booking_passengers WHERE booking_id = %s
            ORDER BY passenger_index;
        """, (booking_id,))
        columns = ('id', 'booking_id', 'passenger_index') + PASSENGER_COLUMNS
        return [BookingPassenger(**dict(zip(columns, row))) for row in cur.fetchall()]

    def passenger_index_map(self, cur, booking_id: int) -> Dict[int, int]:
        """passenger_index -> booking_passengers.id for every passenger of the booking"""
        cur.execute(
            "SELECT passenger_index, id FROM booking_passengers WHERE booking_id = %s;",
            (booking_id,)
        )
        return {row[0]: row[1] for row in cur.fetchall()}

    # ====================================================================
    # SEGMENTS & TICKETS
    # ====================================================================

    def upsert_segment(self, cur, booking_id: int, segment_no: int, fields: Dict[str, Any]) -> int:
        columns = self._checked_columns(fields, SEGMENT_COLUMNS)
        values = [fields[c] for c in columns]
        insert_columns = ', '.join(['booking_id', 'segment_no'] + columns)
        placeholders = ', '.join(['%s'] * (len(columns) + 2))
        updates = ''.join(f"{c} = COALESCE(EXCLUDED.{c}, booking_segments.{c}), " for c in columns)

        cur.execute(f"""
            INSERT INTO booking_segments ({insert_columns})
            VALUES ({placeholders})
            ON CONFLICT (booking_id, segment_no) DO UPDATE SET
                {updates}updated_at = NOW()
            RETURNING id;
        """, [booking_id, segment_no] + values)
        return cur.fetchone()[0]

    def upsert_segment_ticket(self, cur, booking_segment_id: int, booking_passenger_id: int,
                              ticket_num: Optional[str]) -> int:
        cur.execute("""
            INSERT INTO booking_segment_tickets (booking_segment_id, booking_passenger_id, ticket_num)
            VALUES (%s, %s, %s)
            ON CONFLICT (booking_segment_id, booking_passenger_id) DO UPDATE SET
                ticket_num = COALESCE(EXCLUDED.ticket_num, booking_segment_tickets.ticket_num),
                updated_at = NOW()
            RETURNING id;
        """, (booking_segment_id, booking_passenger_id, ticket_num))
        return cur.fetchone()[0]

    def list_segments(self, cur, booking_id: int) -> List[BookingSegment]:
        cur.execute(f"""
            SELECT id, booking_id, segment_no, {', '.join(SEGMENT_COLUMNS)}
            FROM booking_segments WHERE booking_id = %s
            ORDER BY segment_no;
        """, (booking_id,))
        columns = ('id', 'booking_id', 'segment_no') + SEGMENT_COLUMNS
        segments = [BookingSegment(**dict(zip(columns, row))) for row in cur.fetchall()]
        if not segments:
            return segments

        cur.execute("""
            SELECT t.id, t.booking_segment_id, t.booking_passenger_id, t.ticket_num
            FROM booking_segment_tickets t
            JOIN booking_segments s ON s.id = t.booking_segment_id
            WHERE s.booking_id = %s
            ORDER BY t.booking_segment_id, t.booking_passenger_id;
        """, (booking_id,))
        by_segment = {s.id: s for s in segments}
        for row in cur.fetchall():
            ticket = BookingSegmentTicket(id=row[0], booking_segment_id=row[1],
                                          booking_passenger_id=row[2], ticket_num=row[3])
            if ticket.booking_segment_id in by_segment:
                by_segment[ticket.booking_segment_id].tickets.append(ticket)
        return segments

    # ====================================================================
    # AGGREGATE READS
    # ====================================================================

    def load_graph(self, cur, order_num: str) -> Optional[BookingGraph]:
        booking = self.get_booking_by_order_num(cur, order_num)
        if not booking:
            return None
        return BookingGraph(
            booking=booking,
            passengers=self.list_passengers(cur, booking.id),
            segments=self.list_segments(cur, booking.id),
        )

    def get_booking_graph(self, order_num: str) -> Optional[BookingGraph]:
        """Read a booking graph in its own short transaction"""
        if not self.storage.is_available:
            return None

        try:
            with self.storage.transaction() as cur:
                return self.load_graph(cur, order_num)
        except psycopg2.Error as e:
            logger.error(f"Error loading booking {order_num}: {e}", exc_info=True)
            return None

    def list_bookings(self, limit: int = 10, offset: int = 0) -> List[Booking]:
        """Newest bookings first, one page at a time"""
        if not self.storage.is_available:
            return []

        try:
            with self.storage.transaction() as cur:
                cur.execute(f"""
                    SELECT id, {', '.join(BOOKING_COLUMNS)}, created_at, updated_at
                    FROM bookings
                    ORDER BY created_at DESC, id DESC
                    LIMIT %s OFFSET %s;
                """, (limit, offset))
                return [self._row_to_booking(row) for row in cur.fetchall()]
        except psycopg2.Error as e:
            logger.error(f"Error listing bookings: {e}", exc_info=True)
            return []

    # ====================================================================
    # HELPER METHODS
    # ====================================================================

    @staticmethod
    def _checked_columns(fields: Dict[str, Any], allowed) -> List[str]:
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"Unknown columns: {sorted(unknown)}")
        return [c for c in allowed if c in fields]

    @staticmethod
    def _adapt(column: str, value: Any) -> Any:
        if column in BOOKING_JSON_COLUMNS and value is not None:
            return Json(value)
        return value

    @staticmethod
    def _row_to_booking(row) -> Booking:
        columns = ('id',) + BOOKING_COLUMNS + ('created_at', 'updated_at')
        data = dict(zip(columns, row))
        for key in ('status', 'payment_status', 'issue_status'):
            if data.get(key) is None:
                data.pop(key)
        return Booking(**data)
