"""Commission settlement: command and handler."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketplace.commission.commission import CommissionRecord
from marketplace.domain import marketplace


@marketplace.command(part_of="CommissionRecord")
class SettleCommission:
    record_id = Identifier(required=True)
    settled_by = Identifier(required=True)


@marketplace.command_handler(part_of=CommissionRecord)
class SettleCommissionHandler:
    @handle(SettleCommission)
    def settle_commission(self, command):
        repo = current_domain.repository_for(CommissionRecord)
        record = repo.get(command.record_id)
        record.settle(settled_by=command.settled_by)
        repo.add(record)
        return record
