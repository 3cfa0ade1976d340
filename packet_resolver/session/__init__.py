from packet_resolver.session.transport import LoopbackSession, Session, TcpSession

__all__ = ["Session", "LoopbackSession", "TcpSession"]
