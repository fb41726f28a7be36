from amaranth.lib import wiring
from amaranth.lib.wiring import In, Out


class OBISignature(wiring.Signature):

    def __init__(self, data_width=32, addr_width=32):
        self.data_width = data_width
        self.addr_width = addr_width

        super().__init__({
            'req': Out(1),
            'gnt': In(1),
            'addr': Out(addr_width),
            'we': Out(1),
            'be': Out(data_width // 8),
            'wdata': Out(data_width),
            'rvalid': In(1),
            'rdata': In(data_width),
        })


class OBI(wiring.PureInterface):

    def __init__(self, data_width=32, addr_width=32, *, path=None,
                 src_loc_at=0):
        super().__init__(OBISignature(data_width=data_width,
                                      addr_width=addr_width),
                         path=path,
                         src_loc_at=1 + src_loc_at)

    @property
    def data_width(self):
        return self.signature.data_width

    @property
    def addr_width(self):
        return self.signature.addr_width

    @property
    def fire(self):
        return self.req & self.gnt
