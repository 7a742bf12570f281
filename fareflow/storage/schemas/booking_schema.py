from typing import List
from .base_schema import BaseSchema

class BookingSchema(BaseSchema):
    """
    Provider bookings keyed by the PKFare order number, with passengers,
    per-segment PNRs and per-segment ticket numbers.

    Every table carries a natural-key UNIQUE constraint so that both the
    synchronous booking flow and the ticket-issuance webhook can write with
    INSERT ... ON CONFLICT regardless of which one arrives first.
    """

    def get_table_definitions(self) -> List[str]:
        return [
            """
            CREATE TABLE IF NOT EXISTS bookings (
                id BIGSERIAL PRIMARY KEY,
                order_num VARCHAR(64) UNIQUE NOT NULL,
                pnr VARCHAR(255),
                air_pnr VARCHAR(255),
                solution_id VARCHAR(255),
                fare_type VARCHAR(50),
                plating_carrier VARCHAR(10),
                currency VARCHAR(3),

                -- Per passenger type pricing
                adt_fare DECIMAL(12,2) DEFAULT 0.00,
                adt_tax DECIMAL(12,2) DEFAULT 0.00,
                chd_fare DECIMAL(12,2) DEFAULT 0.00,
                chd_tax DECIMAL(12,2) DEFAULT 0.00,
                inf_fare DECIMAL(12,2) DEFAULT 0.00,
                inf_tax DECIMAL(12,2) DEFAULT 0.00,
                adults INT DEFAULT 0,
                children INT DEFAULT 0,
                infants INT DEFAULT 0,
                fees_total DECIMAL(12,2) DEFAULT 0.00,
                agent_fee DECIMAL(12,2) DEFAULT 0.00,
                total_amount DECIMAL(12,2) DEFAULT 0.00,

                -- Contact
                contact_name VARCHAR(155),
                contact_email VARCHAR(255),
                contact_phone VARCHAR(20),

                -- Local lifecycle and provider issuance state
                status VARCHAR(30) DEFAULT 'pending',
                payment_status VARCHAR(30) DEFAULT 'unpaid',
                issue_status VARCHAR(30) DEFAULT 'PENDING',

                -- Ticket issuance notification fields
                merchant_order VARCHAR(255),
                buyer_order VARCHAR(255),
                serial_num VARCHAR(255),
                payment_gate VARCHAR(50),
                permit_void INT,
                last_void_time VARCHAR(50),
                void_service_fee DECIMAL(12,2),
                void_currency VARCHAR(3),
                inform_type VARCHAR(50),
                reject_reason TEXT,
                issue_remark TEXT,
                ticket_issued_payload JSONB,
                offer_snapshot JSONB,

                -- Metadata
                booking_date TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                cancelled_at TIMESTAMP,

                CONSTRAINT valid_booking_status CHECK (
                    status IN ('pending', 'to_be_paid', 'ticketed', 'completed', 'cancelled')
                )
            );
            """,

            """
            CREATE TABLE IF NOT EXISTS booking_passengers (
                id BIGSERIAL PRIMARY KEY,
                booking_id BIGINT NOT NULL REFERENCES bookings(id) ON DELETE CASCADE,
                passenger_index INT NOT NULL,
                psg_type VARCHAR(3),
                sex VARCHAR(1),
                birthday VARCHAR(10),
                first_name VARCHAR(255),
                last_name VARCHAR(255),
                nationality VARCHAR(2),
                card_type VARCHAR(5),
                card_num VARCHAR(255),
                card_expired_date VARCHAR(10),
                associated_passenger_index INT,
                ticket_num VARCHAR(50),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

                UNIQUE(booking_id, passenger_index)
            );
            """,

            """
            CREATE TABLE IF NOT EXISTS booking_segments (
                id BIGSERIAL PRIMARY KEY,
                booking_id BIGINT NOT NULL REFERENCES bookings(id) ON DELETE CASCADE,
                segment_no INT NOT NULL,
                segment_id VARCHAR(255),
                airline VARCHAR(10),
                equipment VARCHAR(20),
                departure_terminal VARCHAR(10),
                arrival_terminal VARCHAR(10),
                departure_date TIMESTAMP WITH TIME ZONE,
                arrival_date TIMESTAMP WITH TIME ZONE,
                departure VARCHAR(3),
                arrival VARCHAR(3),
                flight_num VARCHAR(20),
                air_pnr VARCHAR(50),
                pnr VARCHAR(50),
                cabin_class VARCHAR(20),
                booking_code VARCHAR(5),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

                UNIQUE(booking_id, segment_no)
            );
            """,

            """
            CREATE TABLE IF NOT EXISTS booking_segment_tickets (
                id BIGSERIAL PRIMARY KEY,
                booking_segment_id BIGINT NOT NULL REFERENCES booking_segments(id) ON DELETE CASCADE,
                booking_passenger_id BIGINT NOT NULL REFERENCES booking_passengers(id) ON DELETE CASCADE,
                ticket_num VARCHAR(50),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

                UNIQUE(booking_segment_id, booking_passenger_id)
            );
            """
        ]

    def get_indexes(self) -> List[str]:
        return [
            "CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings(status);",
            "CREATE INDEX IF NOT EXISTS idx_bookings_issue_status ON bookings(issue_status);",
            "CREATE INDEX IF NOT EXISTS idx_bookings_pnr ON bookings(pnr);",
            "CREATE INDEX IF NOT EXISTS idx_bookings_created_at ON bookings(created_at);",
            "CREATE INDEX IF NOT EXISTS idx_booking_passengers_booking ON booking_passengers(booking_id);",
            "CREATE INDEX IF NOT EXISTS idx_booking_segments_booking ON booking_segments(booking_id);",
            "CREATE INDEX IF NOT EXISTS idx_booking_segment_tickets_segment ON booking_segment_tickets(booking_segment_id);",
        ]
